import json

from config import load_config, validate_config
from utils.logger import setup_logging, log_info, log_error, log_warning
from menus.dashboard_menu import run_dashboard


def main() -> None:
    setup_logging()

    try:
        config = load_config()
    except FileNotFoundError as e:
        log_error(f"Config file not found: {e}")
        log_error("Please create config.json with required settings.")
        raise SystemExit(1)
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        raise SystemExit(1)

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_warning(f"Config: {error}")
        log_error("Fix config.json before starting the dashboard.")
        raise SystemExit(1)

    try:
        run_dashboard(config)
    except KeyboardInterrupt:
        log_info("Exiting program...")


if __name__ == "__main__":
    main()
