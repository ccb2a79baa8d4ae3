"""Top-level application package for the SubPirate API.

This package contains the FastAPI backend behind the SubPirate
frontend: Clerk identity resolution and the local profile mirror, the
subscription gate and route authorisation, feature tiers, and linking
Reddit accounts through OAuth.

To run the API locally you can execute:

```bash
cd backend && uvicorn app.api.main:app --reload
```

Configuration comes from environment variables or a ``.env`` file at
the project root (see ``app.core.config``).
"""

__all__: list[str] = []
