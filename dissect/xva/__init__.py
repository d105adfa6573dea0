from dissect.xva.blocks import BLOCK_SIZE, reassemble
from dissect.xva.convert import ConvertConfig, Converter, convert

__all__ = [
    "BLOCK_SIZE",
    "ConvertConfig",
    "Converter",
    "convert",
    "reassemble",
]
