"""Amount encoding: decimal-string codec, reference encoder and QR payloads."""
