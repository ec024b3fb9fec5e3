from tenant_ratelimit.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("tenant_ratelimit.main:app", host="0.0.0.0", port=8000)
