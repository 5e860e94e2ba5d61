"""
Entrypoint: load config and .env, init logging, fetch the seed URLs
"""

import structlog
from dotenv import load_dotenv

from webfetch import FetchError, connect
from webfetch.config import Config
from webfetch.logs import configure_logging


def main():
    """Fetch every configured seed URL and log what came back"""
    # Load environment variables from .env file
    load_dotenv()

    config = Config()
    configure_logging(
        level=config.logging.get('level', 'INFO'),
        fmt=config.logging.get('format', '%(message)s'),
    )
    logger = structlog.get_logger(__name__)

    for url in config.seeds:
        try:
            connection = connect(url, config=config)
            document = connection.get()
            response = connection.response()
            logger.info(
                "document_fetched",
                url=response.url,
                status_code=response.status_code,
                charset=response.charset,
                title=document.title,
                links=len(document.links()),
            )
        except FetchError as e:
            logger.error("fetch_failed", url=url, error=str(e), exc_info=True)


if __name__ == "__main__":
    main()
