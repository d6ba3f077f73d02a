from .sequence_model import SequenceModel, TorchSequenceModel, TokenDenoiser

__all__ = ["SequenceModel", "TorchSequenceModel", "TokenDenoiser"]
