"""Memory files: model, codec, store and index reconciler.

Layout:
    <store>/contexts/
    ├── personal/
    │   └── coffee-order-1a2b3c4d.md     # <title slug>-<id[:8]>.md
    ├── travel/japan/2024/
    │   └── trip-9f8e7d6c.md             # one directory per type path
    └── notes-0a1b2c3d.md                # empty directory override
"""
