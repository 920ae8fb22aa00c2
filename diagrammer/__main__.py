"""CLI entry point for diagrammer.

Usage:
    python -m diagrammer generate "org chart for the sales team" -o chart.html
    python -m diagrammer validate chart.html --request "org chart"
    python -m diagrammer env --category llm
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from diagrammer.config import (
    EnvVar,
    get_available_llm_providers,
    get_environment,
    list_environment_variables,
)
from diagrammer.core.errors import DiagrammerError
from diagrammer.core.log import get_logger, setup_logging
from diagrammer.models import GenerationRequest, ReferenceFile
from diagrammer.pipeline import create_pipeline

# Load environment variables from .env file
load_dotenv()

logger = get_logger("cli")

_SECRET_SUFFIX = "_API_KEY"


# =============================================================================
# Generate Command
# =============================================================================


def _read_reference_file(path: Path) -> ReferenceFile:
    """Read a reference file as plain text."""
    content = path.read_text(encoding="utf-8", errors="replace")
    return ReferenceFile(name=path.name, size=path.stat().st_size, content=content)


def cmd_generate(args: argparse.Namespace) -> int:
    """Handle the generate command."""
    from diagrammer.llm import create_llm_backend

    try:
        request = GenerationRequest(
            instruction=args.instruction,
            files=tuple(_read_reference_file(path) for path in args.file),
        )
        backend = create_llm_backend(args.model) if args.model else None
        pipeline = create_pipeline(
            backend=backend,
            on_retry=lambda attempt, delay: logger.info(
                f"Attempt {attempt} failed, retrying in {delay:g}s"
            ),
        )
    except (DiagrammerError, ValidationError, ValueError, OSError) as e:
        logger.error(f"Cannot start generation: {e}")
        return 1

    async def run():
        async with pipeline:
            return await pipeline.generate(
                request,
                max_iterations=args.max_iterations,
                enable_validation=not args.no_validation,
            )

    logger.info(f"Generating diagram for: {args.instruction}")
    result = asyncio.run(run())

    if not result.success:
        logger.error(f"Generation failed: {result.error}")
        return 1

    meta = result.metadata
    if args.output:
        args.output.write_text(result.artifact, encoding="utf-8")
        logger.info(f"Diagram saved to {args.output}")
    else:
        print(result.artifact)

    if meta.validation_passed is False:
        logger.warning(
            f"Validation still failing after {meta.iterations} iteration(s); "
            "returning best-effort diagram"
        )
        for message in meta.validation_errors:
            logger.warning(f"  {message}")

    logger.info(
        f"Stats: {meta.iterations} iteration(s), {meta.tokens_used} tokens, "
        f"{meta.elapsed_ms}ms, model={meta.model}"
    )
    return 0


# =============================================================================
# Validate Command
# =============================================================================


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle the validate command."""
    from diagrammer.llm import LLMError, create_llm_backend
    from diagrammer.validation import ValidationConfig, ValidationEngine

    try:
        html = args.html_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Cannot read {args.html_path}: {e}")
        return 1

    config = ValidationConfig.from_environment()
    config.browser = not args.no_browser
    config.visual = config.visual and config.browser and not args.no_visual

    vision = None
    if config.visual:
        try:
            backend = create_llm_backend(get_environment(EnvVar.VISION_MODEL))
            vision = backend.analyze_image
        except (LLMError, ValueError) as e:
            logger.warning(f"Visual validation disabled: {e}")

    engine = ValidationEngine(config, vision=vision)
    result = asyncio.run(engine.validate(html, args.request))

    for issue in result.issues:
        print(f"{issue.severity.value.upper():8} [{issue.category.value}] {issue.message}")
    print(f"\nChecks: {', '.join(result.metadata.checks_performed)}")
    verdict = "valid" if result.is_valid else "invalid"
    print(f"Result: {verdict} ({result.metadata.elapsed_ms}ms)")

    if result.feedback:
        logger.info(f"Feedback for regeneration:\n{result.feedback}")

    return 0 if result.is_valid else 1


# =============================================================================
# Environment Command
# =============================================================================


def cmd_env(args: argparse.Namespace) -> int:
    """Handle the env command."""
    variables = list_environment_variables(args.category)
    if not variables:
        logger.error(f"No variables in category: {args.category}")
        return 1

    for var in variables:
        info = var.value
        value = get_environment(var)
        if info.name.endswith(_SECRET_SUFFIX):
            shown = "(set)" if value else "(not set)"
        else:
            shown = value
        print(f"{info.name:28} {str(shown):12} [{info.category}] {info.description}")

    providers = get_available_llm_providers()
    print(f"\nConfigured LLM providers: {', '.join(providers) or 'none'}")
    return 0


def cmd_list_models(_args: argparse.Namespace) -> int:
    """Handle the models command."""
    from diagrammer.llm import LLMModel, LLMProviderType

    for provider in LLMProviderType:
        models = LLMModel.list_by_provider(provider)
        if models:
            print(f"{provider.value}:")
            for model in models:
                spec = model.spec
                print(f"  {spec.name:24} {spec.description}")
    return 0


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="python -m diagrammer",
        description="Generate and validate HTML diagrams",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate a diagram from an instruction",
    )
    generate_parser.add_argument(
        "instruction",
        type=str,
        help="Natural language description of the diagram",
    )
    generate_parser.add_argument(
        "--file",
        "-f",
        type=Path,
        action="append",
        default=[],
        help="Plain-text reference file (repeatable)",
    )
    generate_parser.add_argument(
        "--max-iterations",
        "-n",
        type=int,
        default=None,
        help="Generate/validate iterations (1-10, default: PIPELINE_MAX_ITERATIONS)",
    )
    generate_parser.add_argument(
        "--no-validation",
        action="store_true",
        help="Return the first generated diagram without validating it",
    )
    generate_parser.add_argument(
        "--model",
        "-m",
        type=str,
        default=None,
        help="LLM model name (e.g. gpt-4o, claude-sonnet-4-5)",
    )
    generate_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Output file path (prints to stdout if not specified)",
    )
    generate_parser.set_defaults(func=cmd_generate)

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate an existing HTML diagram",
    )
    validate_parser.add_argument(
        "html_path",
        type=Path,
        help="HTML file to validate",
    )
    validate_parser.add_argument(
        "--request",
        "-r",
        type=str,
        required=True,
        help="The instruction the diagram was generated for",
    )
    validate_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Skip the browser-rendered phase (also skips visual)",
    )
    validate_parser.add_argument(
        "--no-visual",
        action="store_true",
        help="Skip the visual phase",
    )
    validate_parser.set_defaults(func=cmd_validate)

    env_parser = subparsers.add_parser(
        "env",
        help="Show configuration variables",
    )
    env_parser.add_argument(
        "--category",
        "-c",
        type=str,
        default=None,
        choices=["llm", "cache", "pipeline", "browser", "logging"],
        help="Only show one category",
    )
    env_parser.set_defaults(func=cmd_env)

    models_parser = subparsers.add_parser(
        "models",
        help="List available LLM models",
    )
    models_parser.set_defaults(func=cmd_list_models)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    setup_logging(get_environment(EnvVar.LOG_LEVEL))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
