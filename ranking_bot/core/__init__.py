"""Ranking core: models, ranking rules, storage and the application service."""
