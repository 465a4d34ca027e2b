"""HTTP API for starting runs and replaying snapshots."""
