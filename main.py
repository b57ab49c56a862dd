import argparse
import sys
from pathlib import Path

# Add project root to path for robust execution
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from lineweave.config import Config, load_config
from lineweave.data_validation import validate
from lineweave.edit_sink import apply_edits
from lineweave.io_utils import load_tokens, save_edits
from lineweave.layout import format_tokens


def main(argv=None):
    """
    Main command-line interface for the lineweave layout engine.

    This script runs the whole layout pipeline over one file:
    1.  Loads the style file (`style.yaml`), or the LLVM defaults if the file
        is absent and was not requested explicitly.
    2.  Loads the annotated tokens from the input JSON file.
    3.  Builds logical lines and searches the cheapest layout of each line.
    4.  Applies the resulting whitespace edits to the source buffer and writes
        the formatted text.
    """
    parser = argparse.ArgumentParser(
        description="Reformat a source file from its annotated token stream.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "--input",
        required=True,
        help="Path to the annotated tokens JSON file."
    )
    parser.add_argument(
        "--source",
        required=True,
        help="Path to the source file the tokens were lexed from."
    )
    parser.add_argument(
        "--output",
        required=True,
        help="Path to write the formatted source file."
    )
    parser.add_argument(
        "--config",
        default="style.yaml",
        help="Path to the style YAML file."
    )
    parser.add_argument(
        "--save-edits",
        default=None,
        help="Optional path to also save the emitted edits as JSON."
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Print token stream validation issues before formatting."
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar over logical lines."
    )
    args = parser.parse_args(argv)

    try:
        # 1. Load the style
        if Path(args.config).exists() or args.config != parser.get_default("config"):
            print(f"Loading style from {args.config}...")
            cfg = load_config(args.config)
        else:
            print("No style file found, using the LLVM defaults.")
            cfg = Config()

        # 2. Load input data
        print(f"Loading tokens from {args.input}...")
        tokens = load_tokens(args.input)
        with open(args.source, "r", encoding="utf-8") as f:
            source = f.read()

        # 3. Run the layout search
        print("Formatting logical lines...")
        result = format_tokens(tokens, cfg, progress=args.progress)

        if args.validate:
            report = validate(tokens, result.forest)
            print(f"Validation found {report['issue_count']} issue(s).")
            for issue in report["issues"]:
                print(f"  [{issue['type']}] {issue['message']}")
        if result.structural_error:
            print("Warning: unbalanced nesting detected; output is best-effort.", file=sys.stderr)

        # 4. Write to output file(s)
        formatted = apply_edits(source, result.edits)
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(formatted)

        print(f"\nSuccessfully wrote formatted source to {args.output}")

        if args.save_edits:
            save_edits(args.save_edits, result.edits)
            print(f"Successfully wrote {len(result.edits)} edits to {args.save_edits}")

    except (FileNotFoundError, ValueError, TypeError, RuntimeError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
