"""
CrewQuest — Gamification Rules & Economy Engine for Small Teams
================================================================
Turns everyday workplace events (attendance, tasks, cleaning duty, KPI
reviews) into XP, HP and coins, runs an item shop on top of that economy,
and keeps an append-only journal of every change.

Package layout::

    crewquest/
    ├── config.py          # game_configs / YAML → typed GameConfig snapshot
    ├── constants.py       # Leveling formula, history filters
    ├── errors.py          # EngineError hierarchy + Outcome
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models (6 tables)
    │   └── seed.py        # Default config + starter catalog
    ├── engine/
    │   ├── actions.py     # GameAction variants
    │   └── rules.py       # Rule evaluator (pure)
    ├── services/
    │   ├── profile_service.py  # Transactional mutation core
    │   ├── shop_service.py     # Purchases + item consumption
    │   ├── admin_service.py    # Audited manual adjustments
    │   ├── history_service.py  # Log pages + rollups
    │   ├── config_service.py   # Config store reads / audited writes
    │   └── locking.py          # Per-user lock + optimistic retry
    ├── bridges/           # Async trigger helpers (attendance, tasks, duty)
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / config / JWT dependencies
        └── routes/        # Member + admin REST endpoints
"""

__version__ = "0.1.0"
