"""
FastAPI Application

Main entry point for the Storefront Sales Analytics API.

    uvicorn shop_analytics.main:app
    gunicorn shop_analytics.main:app -c gunicorn.conf.py
"""

from shop_analytics.serving.api import create_api_app

app = create_api_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
