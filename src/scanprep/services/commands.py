"""
ScanPrep - Processor Commands

The command enumeration understood by image processors and one typed
configuration per command. Configurations are built from loosely typed
parameter bags at the dispatch boundary: keys are matched
case-insensitively in camelCase or snake_case, unknown keys are ignored and
unusable values fall back to the defaults.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from scanprep.constants import (
    BORDER_DILATE_ITERATIONS,
    BORDER_EDGE_MARGIN_PX,
    BORDER_MAX_AREA_FRACTION,
    CLAHE_CLIP_LIMIT,
    CLAHE_GRID_SIZE,
    CROP_MARGIN_PX,
    CROP_MIN_COMPONENT_FRACTION,
    DESPECKLE_AREA_MULTIPLIER,
    DESPECKLE_MAX_DOT_HEIGHT_FRACTION,
    DESPECKLE_PROXIMITY_FRACTION,
    DESPECKLE_SMALL_AREA_PX,
    DOTS_MAX_AREA_PX,
    DOTS_MIN_CIRCULARITY,
    LEVELS_BLACK_PCT,
    LEVELS_GAMMA,
    LEVELS_WHITE_PCT,
    LINES_DEFAULT_WIDTH_PX,
    LINES_MIN_LENGTH_FRACTION,
    RETINEX_SIGMA,
)
from scanprep.services.binarizer import BinarizeParameters
from scanprep.services.cleanup import BorderMode, LineOrientation, ManualCutMode
from scanprep.services.enhancer import RetinexOutputMode
from scanprep.services.punch_holes import Offsets, PunchShape, PunchSpec, expand_specs
from scanprep.utils.params import normalize_bag, safe_bool, safe_enum, safe_float, safe_int


class ProcessorCommand(Enum):
    """Operations an image processor can apply to its current image."""

    DESKEW = auto()
    BINARIZE = auto()
    BORDERS_REMOVE = auto()
    DESPECKLE = auto()
    SMART_CROP = auto()
    LINES_REMOVE = auto()
    DOTS_REMOVE = auto()
    PUNCH_HOLES_REMOVE = auto()
    CHANNELS_CORRECTION = auto()
    ENHANCE = auto()


class EnhanceMethod(Enum):
    CLAHE = auto()
    RETINEX = auto()
    LEVELS = auto()


@dataclass
class DeskewConfig:
    """Deskew takes no tuning parameters."""

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "DeskewConfig":
        return cls()


@dataclass
class PunchHolesConfig:
    """Punch-hole search template, band offsets and acceptance thresholds."""

    shape: PunchShape = PunchShape.CIRCLE
    diameter: int = 20
    width: int = 20
    height: int = 20
    density: float = 0.5
    size_tolerance: float = 0.4
    fill_ratio: float = 0.9
    roundness: float = 0.9
    top_offset: int = 100
    bottom_offset: int = 100
    left_offset: int = 100
    right_offset: int = 100

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "PunchHolesConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            shape=safe_enum(PunchShape, bag.get("punchshape"), d.shape),
            diameter=safe_int(bag.get("diameter"), d.diameter),
            width=safe_int(bag.get("width"), d.width),
            height=safe_int(bag.get("height"), d.height),
            density=safe_float(bag.get("density"), d.density),
            size_tolerance=safe_float(bag.get("sizetolerance"), d.size_tolerance),
            fill_ratio=safe_float(bag.get("fillratio"), d.fill_ratio),
            roundness=safe_float(bag.get("roundness"), d.roundness),
            top_offset=safe_int(bag.get("topoffset"), d.top_offset),
            bottom_offset=safe_int(bag.get("bottomoffset"), d.bottom_offset),
            left_offset=safe_int(bag.get("leftoffset"), d.left_offset),
            right_offset=safe_int(bag.get("rightoffset"), d.right_offset),
        )

    def specs(self) -> list[PunchSpec]:
        """Search templates for this configuration (BOTH gives two)."""
        spec = PunchSpec(
            shape=self.shape,
            diameter=self.diameter,
            rect_size=(self.width, self.height),
            density=self.density,
            size_tolerance_fraction=self.size_tolerance,
        )
        return expand_specs([spec])

    def offsets(self) -> Offsets:
        return Offsets(
            top=self.top_offset,
            bottom=self.bottom_offset,
            left=self.left_offset,
            right=self.right_offset,
        )


@dataclass
class BordersConfig:
    """Border removal strategy and its parameters.

    AUTO uses ``edge_margin``, ``max_area_fraction`` and
    ``dilate_iterations``; BY_CONTRAST uses the row/column scan fields;
    MANUAL uses the four margins and ``cut``.
    """

    mode: BorderMode = BorderMode.AUTO
    edge_margin: int = BORDER_EDGE_MARGIN_PX
    max_area_fraction: float = BORDER_MAX_AREA_FRACTION
    dilate_iterations: int = BORDER_DILATE_ITERATIONS
    thresh_fraction: float = 0.40
    contrast_threshold: int = 50
    central_sample: float = 0.10
    max_remove_fraction: float = 0.45
    manual_top: int = 0
    manual_bottom: int = 0
    manual_left: int = 0
    manual_right: int = 0
    cut: bool = False

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "BordersConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            mode=safe_enum(BorderMode, bag.get("mode"), d.mode),
            edge_margin=safe_int(bag.get("edgemargin"), d.edge_margin),
            max_area_fraction=safe_float(bag.get("maxareafraction"), d.max_area_fraction),
            dilate_iterations=safe_int(bag.get("dilateiterations"), d.dilate_iterations),
            thresh_fraction=safe_float(bag.get("threshfrac"), d.thresh_fraction),
            contrast_threshold=safe_int(bag.get("contrastthr"), d.contrast_threshold),
            central_sample=safe_float(bag.get("centralsample"), d.central_sample),
            max_remove_fraction=safe_float(bag.get("maxremovefrac"), d.max_remove_fraction),
            manual_top=safe_int(bag.get("manualtop"), d.manual_top),
            manual_bottom=safe_int(bag.get("manualbottom"), d.manual_bottom),
            manual_left=safe_int(bag.get("manualleft"), d.manual_left),
            manual_right=safe_int(bag.get("manualright"), d.manual_right),
            cut=safe_bool(bag.get("cut"), d.cut),
        )

    @property
    def cut_mode(self) -> ManualCutMode:
        return ManualCutMode.CUT if self.cut else ManualCutMode.FILL


@dataclass
class DespeckleConfig:
    small_area_relative: bool = True
    small_area_multiplier: float = DESPECKLE_AREA_MULTIPLIER
    small_area_absolute_px: int = DESPECKLE_SMALL_AREA_PX
    max_dot_height_fraction: float = DESPECKLE_MAX_DOT_HEIGHT_FRACTION
    keep_clusters: bool = True
    proximity_radius_fraction: float = DESPECKLE_PROXIMITY_FRACTION

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "DespeckleConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            small_area_relative=safe_bool(bag.get("smallarearelative"), d.small_area_relative),
            small_area_multiplier=safe_float(
                bag.get("smallareamultiplier"), d.small_area_multiplier
            ),
            small_area_absolute_px=safe_int(
                bag.get("smallareaabsolutepx"), d.small_area_absolute_px
            ),
            max_dot_height_fraction=safe_float(
                bag.get("maxdotheightfraction"), d.max_dot_height_fraction
            ),
            keep_clusters=safe_bool(bag.get("keepclusters"), d.keep_clusters),
            proximity_radius_fraction=safe_float(
                bag.get("proximityradiusfraction"), d.proximity_radius_fraction
            ),
        )


@dataclass
class DotsConfig:
    max_dot_area_px: int = DOTS_MAX_AREA_PX
    min_circularity: float = DOTS_MIN_CIRCULARITY

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "DotsConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            max_dot_area_px=safe_int(bag.get("maxdotareapx"), d.max_dot_area_px),
            min_circularity=safe_float(bag.get("mincircularity"), d.min_circularity),
        )


@dataclass
class LinesConfig:
    orientation: LineOrientation = LineOrientation.BOTH
    line_width: int = LINES_DEFAULT_WIDTH_PX
    min_length_fraction: float = LINES_MIN_LENGTH_FRACTION

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "LinesConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            orientation=safe_enum(LineOrientation, bag.get("orientation"), d.orientation),
            line_width=safe_int(bag.get("linewidth"), d.line_width),
            min_length_fraction=safe_float(bag.get("minlengthfraction"), d.min_length_fraction),
        )


@dataclass
class SmartCropConfig:
    margin_px: int = CROP_MARGIN_PX
    min_component_area_fraction: float = CROP_MIN_COMPONENT_FRACTION

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "SmartCropConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            margin_px=safe_int(bag.get("marginpx"), d.margin_px),
            min_component_area_fraction=safe_float(
                bag.get("mincomponentareafraction"), d.min_component_area_fraction
            ),
        )


@dataclass
class ChannelsConfig:
    """Colour correction in percent (channels, saturation, contrast) and degrees (hue)."""

    red: float = 0.0
    green: float = 0.0
    blue: float = 0.0
    hue: float = 0.0
    saturation: float = 0.0
    brightness: float = 0.0
    contrast: float = 0.0

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "ChannelsConfig":
        bag = normalize_bag(parameters)
        return cls(**{name: safe_float(bag.get(name), 0.0) for name in cls.__dataclass_fields__})

    @property
    def changes_color(self) -> bool:
        return any(v != 0.0 for v in (self.red, self.green, self.blue, self.hue, self.saturation))

    @property
    def changes_tone(self) -> bool:
        return self.brightness != 0.0 or self.contrast != 0.0


@dataclass
class EnhanceConfig:
    method: EnhanceMethod = EnhanceMethod.CLAHE
    clip_limit: float = CLAHE_CLIP_LIMIT
    grid_size: int = CLAHE_GRID_SIZE
    output_mode: RetinexOutputMode = RetinexOutputMode.FILTERED
    use_lab_l: bool = True
    robust_normalize: bool = True
    sigma: float = RETINEX_SIGMA
    black_pct: float = LEVELS_BLACK_PCT
    white_pct: float = LEVELS_WHITE_PCT
    gamma: float = LEVELS_GAMMA

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "EnhanceConfig":
        bag = normalize_bag(parameters)
        d = cls()
        return cls(
            method=safe_enum(EnhanceMethod, bag.get("method"), d.method),
            clip_limit=safe_float(bag.get("cliplimit"), d.clip_limit),
            grid_size=safe_int(bag.get("gridsize"), d.grid_size),
            output_mode=safe_enum(RetinexOutputMode, bag.get("outputmode"), d.output_mode),
            use_lab_l=safe_bool(bag.get("uselabl"), d.use_lab_l),
            robust_normalize=safe_bool(bag.get("robustnormalize"), d.robust_normalize),
            sigma=safe_float(bag.get("sigma"), d.sigma),
            black_pct=safe_float(bag.get("blackpct"), d.black_pct),
            white_pct=safe_float(bag.get("whitepct"), d.white_pct),
            gamma=safe_float(bag.get("gamma"), d.gamma),
        )


COMMAND_CONFIGS: dict[ProcessorCommand, type] = {
    ProcessorCommand.DESKEW: DeskewConfig,
    ProcessorCommand.BINARIZE: BinarizeParameters,
    ProcessorCommand.BORDERS_REMOVE: BordersConfig,
    ProcessorCommand.DESPECKLE: DespeckleConfig,
    ProcessorCommand.SMART_CROP: SmartCropConfig,
    ProcessorCommand.LINES_REMOVE: LinesConfig,
    ProcessorCommand.DOTS_REMOVE: DotsConfig,
    ProcessorCommand.PUNCH_HOLES_REMOVE: PunchHolesConfig,
    ProcessorCommand.CHANNELS_CORRECTION: ChannelsConfig,
    ProcessorCommand.ENHANCE: EnhanceConfig,
}


def build_config(command: ProcessorCommand, parameters: Mapping[str, Any] | None):
    """Typed configuration for ``command`` from a parameter bag."""
    return COMMAND_CONFIGS[command].from_parameters(parameters)
