"""
CLI entry points for nutrition label validation and export.
"""

# Standard Library
import argparse
import json
import logging
import pathlib
import sys
import time

# local repo modules
import nutrilabel.config
import nutrilabel.document
import nutrilabel.errors
import nutrilabel.export
import nutrilabel.metrics
import nutrilabel.payload
import nutrilabel.templates
import nutrilabel.validation


config = nutrilabel.config
ExportOptions = config.ExportOptions

EXPORT_FORMATS = config.EXPORT_FORMATS
RASTER_TYPES = config.RASTER_TYPES
RESOLUTIONS = config.RESOLUTIONS
DEFAULT_RESOLUTION = config.DEFAULT_RESOLUTION
COLOR_PROFILES = config.COLOR_PROFILES
PAPER_CHOICES = tuple(config.PAPER_SIZES) + ("none",)
LOG_FORMAT = "[%(asctime)s %(name)s] [%(levelname)s] %(message)s"


#============================================
def build_options(args: argparse.Namespace) -> ExportOptions:
	"""
	Build export options from CLI args.

	Args:
		args: Parsed argparse namespace.

	Returns:
		ExportOptions.
	"""
	paper = None if args.paper == "none" else args.paper
	options = ExportOptions(
		format=args.format,
		raster_type=args.raster_type,
		resolution=args.resolution,
		paper=paper,
		labels_per_sheet=args.labels_per_sheet,
		copies=args.copies,
		include_cut_lines=args.cut_lines,
		include_bleed=args.bleed,
		color_profile=args.color_profile,
	)
	return options


#============================================
def parse_font_map(entries: list[str]) -> dict[str, str]:
	"""
	Parse NAME=PATH font entries into a map.
	"""
	fonts = {}
	for entry in entries:
		name, sep, path = entry.partition("=")
		if not sep or not name.strip() or not path.strip():
			raise ValueError(f"Font entry must be NAME=PATH: {entry!r}")
		fonts[name.strip()] = path.strip()
	return fonts


#============================================
def load_document(path: pathlib.Path) -> nutrilabel.document.LabelDocument:
	"""
	Load a label document from a JSON file.

	Args:
		path: JSON path.

	Returns:
		LabelDocument.
	"""
	with pathlib.Path(path).open("r", encoding="utf-8") as handle:
		data = json.load(handle)
	return nutrilabel.document.document_from_dict(data)


#============================================
def print_validation(result: nutrilabel.validation.ValidationResult) -> None:
	for issue in result.errors:
		print(f"ERROR   {issue.field}: {issue.message}")
		if issue.suggestion:
			print(f"        suggestion: {issue.suggestion}")
	for issue in result.warnings:
		print(f"WARNING {issue.field}: {issue.message}")
		if issue.suggestion:
			print(f"        suggestion: {issue.suggestion}")
	print(f"Errors: {len(result.errors)}  Warnings: {len(result.warnings)}")


#============================================
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	"""
	Parse command line arguments.

	Args:
		argv: Argument list, defaults to sys.argv.

	Returns:
		Parsed argparse namespace.
	"""
	parser = argparse.ArgumentParser(description="Validate and export bilingual nutrition labels.")
	parser.add_argument("-v", "--verbose", dest="verbose", action="store_true", help="Enable info logging.")
	subparsers = parser.add_subparsers(dest="command", required=True)

	new_parser = subparsers.add_parser("new", help="Create a document from a template.")
	new_parser.add_argument("-t", "--template", dest="template", default=nutrilabel.templates.DEFAULT_TEMPLATE_ID,
		choices=sorted(nutrilabel.templates.TEMPLATES), help="Template id.")
	new_parser.add_argument("-n", "--name", dest="product_name", default="", help="Primary product name.")
	new_parser.add_argument("-o", "--output", dest="output_path", required=True, help="Output JSON path.")

	subparsers.add_parser("templates", help="List available templates.")

	validate_parser = subparsers.add_parser("validate", help="Validate a document.")
	validate_parser.add_argument("document_path", help="Label document JSON.")

	export_parser = subparsers.add_parser("export", help="Export a document.")
	export_parser.add_argument("document_path", help="Label document JSON.")
	export_parser.add_argument("-o", "--output-dir", dest="output_dir", default=".", help="Output directory.")
	export_parser.add_argument("-a", "--assets", dest="assets_dir", default=None, help="Logo asset directory.")

	format_group = export_parser.add_argument_group("Format")
	format_group.add_argument("-f", "--format", dest="format", choices=EXPORT_FORMATS, default="paginated-print",
		help="Output format.")
	format_group.add_argument("-t", "--raster-type", dest="raster_type", choices=RASTER_TYPES, default="png",
		help="Raster image type.")
	format_group.add_argument("-r", "--resolution", dest="resolution", type=int, choices=RESOLUTIONS,
		default=DEFAULT_RESOLUTION, help="Raster resolution in DPI.")
	format_group.add_argument("--color-profile", dest="color_profile", choices=COLOR_PROFILES, default="rgb",
		help="Color profile recorded in metadata.")
	format_group.add_argument("--font", dest="fonts", action="append", default=[], metavar="NAME=PATH",
		help="TrueType file for a font name in raster output; repeatable, use 'NAME Bold' for bold.")

	sheet_group = export_parser.add_argument_group("Sheet")
	sheet_group.add_argument("-p", "--paper", dest="paper", choices=PAPER_CHOICES, default="a4",
		help="Paper preset, or none for the label size.")
	sheet_group.add_argument("-l", "--labels-per-sheet", dest="labels_per_sheet", type=int, default=None,
		help="Labels per sheet, clamped to what fits.")
	sheet_group.add_argument("-c", "--copies", dest="copies", type=int, default=None, help="Total labels to print.")
	sheet_group.add_argument("-k", "--cut-lines", dest="cut_lines", action="store_true", help="Draw cut lines.")
	sheet_group.add_argument("-K", "--no-cut-lines", dest="cut_lines", action="store_false", help="Omit cut lines.")
	sheet_group.add_argument("-b", "--bleed", dest="bleed", action="store_true", help="Add a 3 mm bleed.")
	sheet_group.add_argument("-B", "--no-bleed", dest="bleed", action="store_false", help="No bleed.")

	sheet_parser = subparsers.add_parser("sheet", help="Show how many labels fit on a sheet.")
	sheet_parser.add_argument("document_path", help="Label document JSON.")
	sheet_parser.add_argument("-p", "--paper", dest="paper", choices=PAPER_CHOICES, default="a4", help="Paper preset.")
	sheet_parser.add_argument("-b", "--bleed", dest="bleed", action="store_true", help="Add a 3 mm bleed.")

	export_parser.set_defaults(cut_lines=True, bleed=False)
	sheet_parser.set_defaults(bleed=False)
	args = parser.parse_args(argv)
	return args


#============================================
def run_new(args: argparse.Namespace) -> int:
	fields = {}
	if args.product_name:
		fields["product_name"] = nutrilabel.document.BilingualText(primary=args.product_name)
	document = nutrilabel.templates.new_document(args.template, **fields)
	output_path = pathlib.Path(args.output_path)
	data = nutrilabel.document.document_to_dict(document)
	output_path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
	print(f"Template: {args.template}")
	print(f"Document written: {output_path}")
	return 0


#============================================
def run_templates(args: argparse.Namespace) -> int:
	for template in nutrilabel.templates.TEMPLATES.values():
		dims = template.layout.dimensions
		marker = " (default)" if template.is_default else ""
		print(f"{template.id:<20} {template.regulatory:<6} {dims.width:g}x{dims.height:g} mm  {template.name}{marker}")
	return 0


#============================================
def run_validate(args: argparse.Namespace) -> int:
	document = load_document(args.document_path)
	print(f"Document: {args.document_path}")
	print(f"Standard: {document.regulatory_standard}")
	result = nutrilabel.validation.validate(document)
	print_validation(result)
	return 0 if result.is_valid else 1


#============================================
def run_sheet(args: argparse.Namespace) -> int:
	document = load_document(args.document_path)
	options = ExportOptions(paper=None if args.paper == "none" else args.paper, include_bleed=args.bleed)
	sheet = nutrilabel.export.build_sheet_layout(document, options)
	print(f"Paper: {sheet.paper_width:g}x{sheet.paper_height:g} mm")
	print(f"Tile: {sheet.tile_width:g}x{sheet.tile_height:g} mm")
	print(f"Labels per sheet: {sheet.max_labels_per_sheet}")
	for index, (x, y) in enumerate(sheet.slots, start=1):
		print(f"  slot {index:>3}: x={x:.1f} y={y:.1f}")
	return 0


#============================================
def run_export(args: argparse.Namespace) -> int:
	"""
	Validate and export one document.

	Args:
		args: Parsed argparse namespace.

	Returns:
		Process exit code.
	"""
	options = build_options(args)
	document = load_document(args.document_path)
	print(f"Document: {args.document_path}")
	print(f"Format: {options.format}")
	if options.format == "raster":
		print(f"Raster: {options.raster_type} at {options.resolution} dpi")
	print(f"Paper: {options.paper or 'label size'}")
	print(f"Cut lines: {options.include_cut_lines}")
	print(f"Bleed: {options.include_bleed}")

	asset_store = None
	if args.assets_dir:
		asset_store = nutrilabel.payload.FileAssetStore(pathlib.Path(args.assets_dir))
	else:
		asset_store = nutrilabel.payload.MemoryAssetStore()

	start_time = time.perf_counter()
	result = nutrilabel.export.export_document(
		document,
		options,
		metrics=nutrilabel.metrics.FontMetrics(),
		asset_store=asset_store,
		qr_encoder=nutrilabel.payload.QrImageEncoder(),
		fonts=parse_font_map(args.fonts),
	)
	if result.validation is not None:
		print_validation(result.validation)
	if result.status != "completed":
		print(f"Export {result.status}: {result.reason}")
		return 1
	output_path = nutrilabel.export.write_artifact(result, pathlib.Path(args.output_dir))
	total_time = time.perf_counter() - start_time
	if options.format == "paginated-print":
		print(f"Pages written: {result.pages}")
	print(f"Output written: {output_path}")
	print(f"Timing: total={total_time:.2f}s")
	return 0


COMMANDS = {
	"new": run_new,
	"templates": run_templates,
	"validate": run_validate,
	"sheet": run_sheet,
	"export": run_export,
}


#============================================
def main(argv: list[str] | None = None) -> None:
	"""
	Main entry point.
	"""
	args = parse_args(argv)
	level = logging.INFO if args.verbose else logging.WARNING
	logging.basicConfig(level=level, format=LOG_FORMAT)
	logging.getLogger("PIL").setLevel(logging.WARNING)
	try:
		code = COMMANDS[args.command](args)
	except (OSError, ValueError, KeyError, nutrilabel.errors.LabelError) as error:
		print(f"Error: {error}")
		code = 2
	sys.exit(code)
