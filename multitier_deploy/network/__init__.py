"""Network layer: security groups, VNet layout and pre-deployment checks."""
