import argparse
import asyncio
import json

from dotenv import load_dotenv

load_dotenv()
load_dotenv(".env.local", override=True)

from quizgen.core.observability.logger_config import configure_structlog  # noqa: E402
from quizgen.domain.exceptions import GenerationAlreadyRunningError  # noqa: E402
from quizgen.domain.schemas import GenerationConfig, ItemTypeFlags  # noqa: E402
from quizgen.domain.types import QuantityTier, RunStatus  # noqa: E402
from quizgen.infrastructure.container import QuizGenerationContainer  # noqa: E402

_TYPE_CHOICES = ("qcm", "vrai_faux", "texte_trous")


def _parse_types(raw: str) -> ItemTypeFlags:
    requested = {part.strip().lower() for part in (raw or "").split(",") if part.strip()}
    unknown = requested - set(_TYPE_CHOICES)
    if unknown:
        raise argparse.ArgumentTypeError(f"Unknown item types: {', '.join(sorted(unknown))}")
    return ItemTypeFlags(**{name: name in requested for name in _TYPE_CHOICES})


async def main() -> int:
    parser = argparse.ArgumentParser(description="Generate quiz items for every chapter of a course.")
    parser.add_argument("document_id", help="Course id whose chapters are already extracted")
    parser.add_argument(
        "--niveau",
        choices=[tier.value for tier in QuantityTier],
        default=QuantityTier.STANDARD.value,
        help="Quantity tier",
    )
    parser.add_argument("--language", default="EN", help="Content language (EN, FR, DE)")
    parser.add_argument(
        "--types",
        type=_parse_types,
        default=ItemTypeFlags(),
        help="Comma-separated item types: qcm,vrai_faux,texte_trous",
    )
    args = parser.parse_args()

    configure_structlog()
    config = GenerationConfig(niveau=QuantityTier(args.niveau), types=args.types)
    use_case = QuizGenerationContainer().generate_quiz_use_case

    try:
        result = await use_case.execute(args.document_id, config, args.language)
    except GenerationAlreadyRunningError as exc:
        print(json.dumps({"status": "rejected", "error": str(exc)}))
        return 2

    print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0 if result.status != RunStatus.FAILED else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
