import logging

from loanbot.config import LOG_LEVEL
from loanbot.whatsapp.webhook import app

__all__ = ["app"]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "loanbot.whatsapp.webhook:app", host="0.0.0.0", port=8000, reload=True
    )
