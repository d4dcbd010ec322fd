"""Solmate API: tip-to-match dating backend."""
