"""
Archiver package: incrementally copies direct-message and whitelisted
guild channels from the REST API into per-message JSON files.

Each channel's last archived message id is kept as a checkpoint under
``channels/`` so every pass only fetches what is missing.
"""
