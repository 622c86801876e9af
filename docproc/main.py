from docproc.config.settings import Settings
from docproc.database.connection import apply_schema, close_pool, init_pool
from docproc.logging.logger import Log
from docproc.services import build_services


def main() -> None:
    """Entry point: initialize storage -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    use_postgres = settings.storage_backend.lower() == "postgres"
    if use_postgres:
        init_pool(settings)
        apply_schema()

    try:
        services = build_services(settings)
        Log.info(
            f"docproc starting ({settings.app_env}, storage={settings.storage_backend}, "
            f"default provider={services.registry.default_provider.value})"
        )
        services.worker.run()
    finally:
        if use_postgres:
            close_pool()


if __name__ == "__main__":
    main()
