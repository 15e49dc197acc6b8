"""HTTP application wiring, error envelopes and response contracts."""
