"""
Rooms adapter components.

- core/  - contracts, configuration record, completion callbacks, errors
- redis/ - key layout, Lua scripts, client factories
"""
