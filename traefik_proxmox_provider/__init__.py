"""Traefik dynamic configuration provider for Proxmox VE clusters."""

__version__ = "0.1.0"
