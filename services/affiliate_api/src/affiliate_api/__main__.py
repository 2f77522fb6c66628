import uvicorn

from affiliate_api.settings import get_settings


def main() -> None:
    settings = get_settings()
    # log_config=None keeps the dictConfig installed by affiliate_api.main.
    uvicorn.run("affiliate_api.main:app", host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
