"""Convert raw camera frames to baseline JPEG and 24-bit BMP."""

__version__ = "0.1.0"
__all__ = ["jpeg_encoder", "jpeg_tables", "pixformat", "to_bmp", "to_jpg", "yuv"]