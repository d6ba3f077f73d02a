"""Training entry point."""

import argparse
import logging

from tokendiff.config import load_config
from tokendiff.core.diffusion.strategy import get_strategy
from tokendiff.diffusion.model import DiffusionModel
from tokendiff.models.sequence_model import TorchSequenceModel
from tokendiff.tokenizer import WordTokenizer
from tokendiff.utils.logging import setup_logging
from tokendiff.utils.seed import set_seed


logger = logging.getLogger(__name__)


def read_corpus(path: str):
    with open(path, 'r') as f:
        return [line.strip() for line in f if line.strip()]


def main():
    parser = argparse.ArgumentParser(description="Train discrete text diffusion model")
    parser.add_argument("--config", type=str, required=True, help="Config file")
    parser.add_argument("--corpus", type=str, required=True, help="Text file, one sentence per line")
    parser.add_argument("--strategy", type=str, default="masked",
                        choices=["basic", "masked", "better"], help="Diffusion strategy")
    parser.add_argument("--hidden-dim", type=int, default=128, help="Reference model hidden size")
    parser.add_argument("--num-samples", type=int, default=3, help="Samples to generate after training")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    parser.add_argument("--log-file", type=str, default=None, help="Optional log file")

    args = parser.parse_args()

    # Setup
    setup_logging(args.log_level, args.log_file)
    rng = set_seed(args.seed)

    diffusion_config, parallel_config = load_config(args.config)
    sentences = read_corpus(args.corpus)
    tokenizer = WordTokenizer(sentences)

    network = TorchSequenceModel(
        diffusion_config.max_length, tokenizer.vocab_size, hidden_dim=args.hidden_dim, seed=args.seed
    )
    model = DiffusionModel(
        network, diffusion_config, sentences, parallel_config, rng=rng, tokenizer=tokenizer
    )
    logger.info(f"Loaded {len(sentences)} sentences, vocabulary size {model.vocab_size}")

    strategy = get_strategy(args.strategy)
    history = model.fit(model.prepare(sentences), strategy)
    if history:
        logger.info(f"Final loss: {history[-1].loss:.4f}")

    for i in range(args.num_samples):
        logger.info(f"Sample {i}: {model.sample(args.strategy)}")


if __name__ == "__main__":
    main()
