import uvicorn

from vista_coupons.core.settings import settings


def main() -> None:
    uvicorn.run(
        "vista_coupons.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
