"""Shipment portal: approval workflow backend for freight shipments."""

__version__ = "0.1.0"
