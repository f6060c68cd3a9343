"""DemakAI: WhatsApp assistant for BPS Kabupaten Demak statistics."""

__version__ = "1.0.0"
