from .rasterizer import CellIrradiance, IrradianceRasterizer, RasterBuffers
from .scalar_codec import decode_scalar, encode_scalar

__all__ = [
    "IrradianceRasterizer",
    "RasterBuffers",
    "CellIrradiance",
    "encode_scalar",
    "decode_scalar",
]
