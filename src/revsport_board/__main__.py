"""Run the booking board API: python -m revsport_board"""

import uvicorn

from revsport_board.api import create_app
from revsport_board.config import get_config
from revsport_board.logging import setup_logging


def main() -> None:
    # defaults first, so a config that falls back to defaults is reported
    # in the same format it then runs with
    setup_logging()
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    main()
