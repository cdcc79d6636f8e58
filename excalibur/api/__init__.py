"""
HTTP layer: FastAPI dependencies and routers.
"""
