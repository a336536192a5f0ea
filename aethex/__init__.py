"""
AeThex — Discord Realm & Role Sync
===================================
Links Discord accounts to AeThex accounts, lets members choose a primary
arm ("realm"), and keeps each member's arm role consistent across every
guild the bot is in.

Package layout::

    aethex/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Arm labels, family substrings
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (links, verifications, role mappings)
    ├── services/
    │   ├── role_sync_service.py    # Arm role reconciler + cross-guild sync
    │   ├── role_mapping_service.py # Audited role-mapping store
    │   ├── link_service.py         # Verification codes + account links
    │   └── embeds.py               # Discord embed builders
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader, provider wiring
    │   └── cogs/
    │       ├── realm.py       # /verify, /set-realm, /refresh-roles, ...
    │       ├── membership.py  # Re-sync roles on member join
    │       └── tasks.py       # Expired verification purge loop
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT + engine dependencies
        └── routes/        # Linking + admin role-mapping endpoints
"""

__version__ = "0.1.0"
