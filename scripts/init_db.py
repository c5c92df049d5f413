"""Create the shared document table and report where it lives."""

from sqlalchemy import inspect

from src.adcast.config import load_config


def main() -> None:
    config = load_config()
    tables = inspect(config.engine).get_table_names()
    print(f"Document store ready at {config.settings.database_url} ({', '.join(tables)}).")
    config.engine.dispose()


if __name__ == "__main__":
    main()
