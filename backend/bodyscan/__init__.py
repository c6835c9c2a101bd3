"""
BodyScan: body measurements from two phone photos, delivered through
single-use scan links.

Device side: pose landmarks -> calibration -> measurement estimate ->
confidence gate. Server side: the scan session store behind each link.
"""

__version__ = "1.0.0"
