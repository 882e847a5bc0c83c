"""Protocol adapters: XMPP component transport and SMS providers."""
