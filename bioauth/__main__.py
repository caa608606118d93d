import logging

import uvicorn

from bioauth import create_app
from bioauth.core.config import settings

logger = logging.getLogger("bioauth")


def main():
    logging.basicConfig(level=settings.LOG_LEVEL.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    logger.info(f"Passkey login live at {settings.WEBAUTHN_ORIGIN} (RP ID {settings.WEBAUTHN_RP_ID})")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
