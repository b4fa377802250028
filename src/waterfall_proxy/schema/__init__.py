"""
Pydantic schemas shared by the waterfall proxy services and API routers.
"""
