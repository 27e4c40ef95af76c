"""Service layer shared by the routers."""
