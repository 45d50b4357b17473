"""HTTP surface: dependencies, pages and routers."""
