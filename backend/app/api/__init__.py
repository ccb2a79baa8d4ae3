"""API package.

Routers live in ``app.api.routes`` so tests can mount them on their own
app, for example:
	from app.api.routes.reddit import router
"""

__all__ = [
	"routes",
]
