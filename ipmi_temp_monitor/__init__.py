"""
Keep a server's fans in step with one IPMI temperature sensor.

The daemon polls the sensor over IPMI-over-LAN, then hands fan control back
to the BMC when it is too hot, or pins the fans to a high or low tier
otherwise.
"""

__version__ = "1.0.0"
