"""Post-deployment reporting and generated artifacts."""
