"""
Jobless Rewards — Achievement & Points Rule Engine
====================================================
Decides which badges a community member has earned, keeps the awards and
their pinned profile slots consistent, and scores social engagements
against administrator-authored point rules.

Package layout::

    jobless/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Modules, pin slot cap, time helpers
    ├── errors.py          # Domain error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default badge & scoring-rule catalogue
    ├── engine/
    │   ├── criteria.py    # Typed badge criteria + evaluator registry
    │   ├── pins.py        # Pin slot state machine
    │   └── scoring.py     # Engagement points pipeline
    ├── services/
    │   ├── activity_service.py  # Activity aggregator (read-only measurements)
    │   ├── badge_service.py     # Sweeps, idempotent awards, pins, stats
    │   ├── points_service.py    # Points preview/commit, limits, review
    │   └── admin_service.py     # Audit-logged catalogue mutations
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT + engine/config dependencies
        └── routes/        # Badge, engagement and admin endpoints
"""

__version__ = "0.1.0"
