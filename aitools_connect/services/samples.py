"""Embedded sample inputs for scenarios that run without operator input."""

# 50x50 RGB PNG, the smallest size the image analysis API accepts.
SAMPLE_PNG = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452"
    "00000032000000320802000000915d1f"
    "e6000000394944415478daedce010900"
    "0008c0b0f72fad3514060bb0a60e4a4b"
    "4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b4b"
    "4b4b4b4b4b4b4b4b4b4beb576b017b2b"
    "bac42d112db90000000049454e44ae42"
    "6082"
)
SAMPLE_PNG_CONTENT_TYPE = "image/png"
