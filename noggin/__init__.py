"""Spaced-repetition review scheduling for Noggin study modules."""
