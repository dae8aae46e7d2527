import argparse
import logging
import sys
from typing import List, Optional, Sequence

from .config import StorageConfig, TrainerConfig, UpdateConfig
from .default_logger import get_default_logger, set_verbosity
from .exceptions import (
    DecodeError,
    FetchError,
    FileIOError,
    HyperparameterError,
    UnknownArticleError,
    UnknownUserError,
)
from .persistence import load_database, load_model, save_database, save_model
from .progress import FastProgressSink
from .trainer import Trainer
from .update import Updater, WikiClient


def _build_parser() -> argparse.ArgumentParser:
    trainer_defaults = TrainerConfig()
    update_defaults = UpdateConfig()
    storage_defaults = StorageConfig()

    parser = argparse.ArgumentParser(
        prog="wikivote",
        description="Recommend wiki articles to users from their up- and downvotes.",
    )
    parser.add_argument(
        "--database",
        default=str(storage_defaults.database_path),
        help="The database file.",
    )
    parser.add_argument(
        "--model",
        default=str(storage_defaults.model_path),
        help="The prediction model file.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    update = subparsers.add_parser(
        "update",
        help="Update the database by downloading articles from the wiki. "
        "Note that this will always create a new database file, overwriting any existing one.",
    )
    update.add_argument(
        "-f",
        "--from",
        dest="first",
        type=int,
        default=update_defaults.first,
        help="The article number to start from (inclusive).",
    )
    update.add_argument(
        "-t",
        "--to",
        dest="last",
        type=int,
        default=update_defaults.last,
        help="The article number to end at (inclusive).",
    )

    train = subparsers.add_parser("train", help="Train the model.")
    train.add_argument(
        "-l",
        "--latent_factors",
        type=int,
        default=trainer_defaults.latent_factors,
        help="The number of latent factors to use for the model.",
    )
    train.add_argument(
        "-i",
        "--iterations",
        type=int,
        default=trainer_defaults.iterations,
        help="The number of iterations to train each factor.",
    )
    train.add_argument(
        "-r",
        "--learning_rate",
        type=float,
        default=trainer_defaults.learning_rate,
        help="The learning rate to use for the model.",
    )
    train.add_argument(
        "-o",
        "--regularization",
        type=float,
        default=trainer_defaults.regularization,
        help="The regularization to use for the model.",
    )
    train.add_argument(
        "-n",
        "--n_threads",
        type=int,
        default=None,
        help="The number of threads used within each iteration.",
    )

    predict = subparsers.add_parser(
        "predict", help="Predict top votes on articles for a user."
    )
    predict.add_argument(
        "-t", "--top", type=int, default=10, help="The number of top articles to predict."
    )
    predict.add_argument("users", nargs="+", metavar="USER")

    advertise = subparsers.add_parser(
        "advertise",
        help="Predict which users will most likely vote positive on an article.",
    )
    advertise.add_argument(
        "-t", "--top", type=int, default=10, help="The number of top users to predict."
    )
    advertise.add_argument("articles", nargs="+", metavar="ARTICLE")
    return parser


def _format_predictions(predictions: Sequence[tuple]) -> str:
    return ", ".join(
        f"{name} (predicted vote: {score:.2f})" for name, score in predictions
    )


def run_update(args: argparse.Namespace, logger: logging.Logger) -> None:
    updater = Updater(client=WikiClient(timeout=UpdateConfig().timeout), logger=logger)
    database = updater.update(args.first, args.last)
    logger.info("Saving database to %s.", args.database)
    save_database(database, args.database)


def run_train(args: argparse.Namespace, logger: logging.Logger) -> None:
    config = TrainerConfig(
        latent_factors=args.latent_factors,
        iterations=args.iterations,
        learning_rate=args.learning_rate,
        regularization=args.regularization,
        n_threads=args.n_threads,
    )
    database = load_database(args.database)
    trainer = Trainer.from_config(
        database, config, progress=FastProgressSink(), logger=logger
    )
    model = trainer.train()
    save_model(model, args.model)
    logger.info("Saved prediction model to %s.", args.model)


def run_predict(args: argparse.Namespace, logger: logging.Logger) -> None:
    model = load_model(args.model)
    for user in args.users:
        try:
            predictions = model.top_articles_for_user(user, args.top)
        except UnknownUserError as e:
            print(e)
            continue
        print(
            f"User {user} will most likely upvote those articles: "
            + _format_predictions(predictions)
        )


def run_advertise(args: argparse.Namespace, logger: logging.Logger) -> None:
    model = load_model(args.model)
    for article in args.articles:
        try:
            predictions = model.top_users_for_article(article, args.top)
        except UnknownArticleError as e:
            print(e)
            continue
        print(f"{article} will most likely be upvoted by: " + _format_predictions(predictions))


_COMMANDS = {
    "update": run_update,
    "train": run_train,
    "predict": run_predict,
    "advertise": run_advertise,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    set_verbosity(args.verbose)
    logger = get_default_logger()
    try:
        _COMMANDS[args.command](args, logger)
    except (FileIOError, DecodeError, HyperparameterError, FetchError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
