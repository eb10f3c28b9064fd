"""Field mapping table, value translators, canonical schema index and entity transformer."""
