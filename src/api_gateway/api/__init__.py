"""API Gateway routers."""
