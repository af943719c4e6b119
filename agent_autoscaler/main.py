from pathlib import Path

from kubernetes import client
from kubernetes import config as kube_config
from prometheus_api_client import PrometheusConnect

from agent_autoscaler.config import AutoscalerConfig, ScalingConfig, load_scaling_config
from agent_autoscaler.logging_config import setup_logging
from agent_autoscaler.provisioning.alert_writer import AlertWriter
from agent_autoscaler.provisioning.executor import KubernetesExecutor, LoggingExecutor, ScalingExecutor
from agent_autoscaler.provisioning.kubernetes_client import KubernetesClient
from agent_autoscaler.provisioning.registry import (
    InstanceRegistry,
    KubernetesInstanceRegistry,
    StaticInstanceRegistry,
)
from agent_autoscaler.report import format_decisions_table, format_summary
from agent_autoscaler.scheduler import AutoScaler
from agent_autoscaler.telemetry.csv_source import CsvTelemetrySource
from agent_autoscaler.telemetry.prometheus_client import PrometheusTelemetrySource
from agent_autoscaler.telemetry.source import TelemetrySource


def build_source(settings: AutoscalerConfig) -> TelemetrySource:
    if settings.telemetry_source == "csv":
        return CsvTelemetrySource(settings.telemetry_csv_path)
    prom = PrometheusConnect(url=settings.prometheus_url, disable_ssl=True)
    return PrometheusTelemetrySource(prom, window=settings.telemetry_window)


def build_provisioning(settings: AutoscalerConfig) -> tuple[ScalingExecutor, InstanceRegistry]:
    alert_writer = AlertWriter(alerts_dir=Path(settings.alerts_dir))
    if settings.executor == "kubernetes":
        try:
            kube_config.load_incluster_config()
        except kube_config.ConfigException:
            kube_config.load_kube_config()
        kube_client = KubernetesClient(apps_api=client.AppsV1Api(), namespace=settings.namespace)
        return KubernetesExecutor(kube_client, alert_writer), KubernetesInstanceRegistry(kube_client)
    return LoggingExecutor(alert_writer), StaticInstanceRegistry()


def load_policy(settings: AutoscalerConfig) -> ScalingConfig:
    if not Path(settings.scaling_config_path).exists():
        return ScalingConfig()
    return load_scaling_config(settings.scaling_config_path)


def main() -> None:
    settings = AutoscalerConfig.from_env()
    logger = setup_logging("autoscaler", log_file=settings.log_file)

    policy = load_policy(settings)
    logger.info(f"Scaling policy: {policy.to_dict()}")

    executor, registry = build_provisioning(settings)
    autoscaler = AutoScaler(
        source=build_source(settings),
        config=policy,
        executor=executor,
        registry=registry,
        sample_limit=settings.sample_limit,
    )

    if settings.run_mode == "loop":
        autoscaler.run_forever(auto_execute=settings.auto_execute)
        return

    report = autoscaler.analyze()
    if report is None:
        raise SystemExit(1)
    if settings.auto_execute:
        autoscaler.execute_all()

    print(f"\n### Scaling decisions ({report.analyzed_at:%Y-%m-%d %H:%M:%S} UTC)\n")
    print(format_decisions_table(autoscaler.decisions))
    print(f"\n{format_summary(report.summary)}")


if __name__ == "__main__":
    main()
