from __future__ import annotations

import logging

from nubifica.application.container import AppContainer, build_container
from nubifica.config import AppPaths, get_app_paths
from nubifica.logging_config import setup_logging
from nubifica.services.formatting import format_cop

log = logging.getLogger(__name__)


def bootstrap(paths: AppPaths | None = None, seed: bool = True) -> AppContainer:
    paths = paths or get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)
    container = build_container(paths.db_path, seed=seed)
    log.info("app_started db=%s auth=%s", paths.db_path, "on" if container.auth else "off")
    return container


def main() -> None:
    container = bootstrap()
    health = container.operations.run_health_check()
    summary = container.reporting.dashboard_summary()
    print(f"Base de datos: {health.store_integrity} ({health.slot_count} colecciones)")
    print(f"Total cobrado: {format_cop(summary.total_collected)}")
    print(f"Por cobrar:    {format_cop(summary.pending_collection)}")


if __name__ == "__main__":
    main()
