"""
Services layer - wallet engine business logic

Submodules are imported directly (wallet_engine.services.escrow_manager, ...).
"""
