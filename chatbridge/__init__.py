"""Chat bridge between a WhatsApp transport, the Henmir CRM tools and an LLM."""

__version__ = "2.0.0"
