import logging

from wishkeeper.api.http_server import create_server
from wishkeeper.api.service import ApiService
from wishkeeper.config import get_store_config


def main() -> None:
    config = get_store_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    service = ApiService(config=config)
    service.load()
    server = create_server(host="127.0.0.1", port=8000, service=service)
    logging.getLogger(__name__).info("wishkeeper API listening on http://127.0.0.1:8000")
    try:
        server.serve_forever()
    finally:
        server.server_close()
        service.close()


if __name__ == "__main__":
    main()
