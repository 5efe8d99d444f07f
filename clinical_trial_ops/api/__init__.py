"""
API package: FastAPI app, routers, services and configuration
"""
