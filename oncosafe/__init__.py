"""OncoSafeRx Interaction & Dosing Engine."""

__version__ = "1.0.0"
