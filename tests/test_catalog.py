"""
Tests for src/traits/catalog.py: filename parsing, layer loading, validation.
"""

import pytest
from PIL import Image

from conftest import make_element, write_png
from src.engine.config import LayerOptions
from src.engine.errors import AssetLoadError, ConfigurationError
from src.traits.catalog import (
    BlendMode,
    Layer,
    TraitElement,
    has_background_layer,
    load_layer,
    parse_trait_filename,
    scan_layers_folder,
    validate_layers,
)


class TestParseTraitFilename:
    def test_weight_suffix(self):
        assert parse_trait_filename("Red Eyes#20.png") == ("Red Eyes", 20)

    def test_no_suffix_defaults_to_one(self):
        assert parse_trait_filename("Plain.png") == ("Plain", 1)

    def test_unparsable_weight_defaults_to_one(self):
        assert parse_trait_filename("Hat#rare.png") == ("Hat", 1)

    def test_negative_weight_defaults_to_one(self):
        assert parse_trait_filename("Hat#-4.png") == ("Hat", 1)

    def test_zero_weight_kept(self):
        assert parse_trait_filename("Ghost#0.png") == ("Ghost", 0)

    def test_longer_extension(self):
        assert parse_trait_filename("Sky#5.jpeg") == ("Sky", 5)

    def test_numeric_name_without_suffix(self):
        assert parse_trait_filename("42.png") == ("42", 1)

    def test_empty_name_keeps_stem(self):
        assert parse_trait_filename("#5.png") == ("#5", 5)

    def test_name_with_dots(self):
        assert parse_trait_filename("v1.2 Robot#3.png") == ("v1.2 Robot", 3)


class TestBlendMode:
    def test_parse_values(self):
        assert BlendMode.parse("multiply") is BlendMode.MULTIPLY
        assert BlendMode.parse("Color-Dodge") is BlendMode.COLOR_DODGE
        assert BlendMode.parse("soft_light") is BlendMode.SOFT_LIGHT

    def test_source_over_alias(self):
        assert BlendMode.parse("source-over") is BlendMode.NORMAL

    def test_closed_set(self):
        assert len(BlendMode) == 12
        with pytest.raises(ConfigurationError, match="Unknown blend mode"):
            BlendMode.parse("xor")

    def test_layer_normalises_blend_string(self):
        layer = Layer(name="A", elements=[make_element(0, "a.png")], blend="screen")
        assert layer.blend is BlendMode.SCREEN
        assert layer.display_name == "A"


class TestTraitElement:
    def test_load_from_file(self, tmp_path):
        path = write_png(tmp_path / "Red#2.png", (255, 0, 0, 255))
        element = TraitElement.from_file(0, path)
        assert element.name == "Red"
        assert element.weight == 2
        img = element.load_image()
        assert img.mode == "RGBA"
        assert img.getpixel((0, 0)) == (255, 0, 0, 255)

    def test_load_from_bytes(self, tmp_path):
        path = write_png(tmp_path / "x.png", (1, 2, 3, 255))
        element = TraitElement(0, "x", "x.png", source=path.read_bytes())
        assert element.load_image().getpixel((1, 1)) == (1, 2, 3, 255)

    def test_rgb_source_converted(self):
        element = TraitElement(0, "x", "x.png", source=Image.new("RGB", (2, 2), (9, 9, 9)))
        assert element.load_image().getpixel((0, 0)) == (9, 9, 9, 255)

    def test_corrupt_source_raises(self):
        element = TraitElement(0, "Broken", "Broken.png", source=b"not a png")
        with pytest.raises(AssetLoadError) as exc_info:
            element.load_image("Eyes")
        assert exc_info.value.layer == "Eyes"
        assert exc_info.value.filename == "Broken.png"

    def test_missing_file_raises(self, tmp_path):
        element = TraitElement.from_file(0, tmp_path / "gone.png")
        with pytest.raises(AssetLoadError):
            element.load_image("Eyes")

    def test_oversized_image_raises(self, tmp_path, monkeypatch):
        path = write_png(tmp_path / "Huge.png", (1, 2, 3, 255), size=64)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        element = TraitElement.from_file(0, path)
        with pytest.raises(AssetLoadError) as exc_info:
            element.load_image("Eyes")
        assert exc_info.value.filename == "Huge.png"


class TestLoading:
    def test_load_layer_sorted_ids(self, layers_dir):
        layer = load_layer(layers_dir / "1-Body")
        assert [e.filename for e in layer.elements] == ["Gold#1.png", "Plain#2.png", "Spotted#1.png"]
        assert [e.id for e in layer.elements] == [0, 1, 2]
        assert layer.total_weight == 4

    def test_non_images_ignored(self, layers_dir):
        layer = load_layer(layers_dir / "3-Hat")
        assert [e.name for e in layer.elements] == ["Cap"]

    def test_load_layer_with_options(self, layers_dir):
        opts = LayerOptions(name="2-Eyes", display_name="Eyes", blend="multiply",
                            opacity=0.5, bypass_dna=True)
        layer = load_layer(layers_dir / "2-Eyes", opts)
        assert layer.display_name == "Eyes"
        assert layer.blend is BlendMode.MULTIPLY
        assert layer.opacity == 0.5
        assert layer.bypass_dna

    def test_weight_overrides(self, layers_dir):
        opts = LayerOptions(name="1-Body", weights={"Gold#1.png": 6})
        layer = load_layer(layers_dir / "1-Body", opts)
        assert [e.weight for e in layer.elements] == [6, 2, 1]
        assert layer.total_weight == 9

    def test_weight_override_for_unknown_file(self, layers_dir):
        opts = LayerOptions(name="1-Body", weights={"Silver.png": 3})
        with pytest.raises(ConfigurationError, match="Silver.png"):
            load_layer(layers_dir / "1-Body", opts)

    def test_rarity_percentages(self, layers_dir):
        layer = load_layer(layers_dir / "2-Eyes")
        # Laser#1, Round, Sleepy#2
        assert [layer.rarity(e) for e in layer.elements] == [25.0, 25.0, 50.0]

    def test_rarity_rounded(self):
        layer = Layer(name="A", elements=[make_element(0, "a.png"), make_element(1, "b.png", weight=2)])
        assert layer.rarity(layer.elements[0]) == 33.33
        assert layer.rarity(layer.elements[1]) == 66.67

    def test_scan_sorted_and_skips_empty(self, layers_dir):
        layers = scan_layers_folder(layers_dir)
        assert [l.name for l in layers] == ["1-Body", "2-Eyes", "3-Hat"]

    def test_scan_with_explicit_order(self, layers_dir):
        order = [LayerOptions(name="3-Hat"), LayerOptions(name="1-Body", display_name="Body")]
        layers = scan_layers_folder(layers_dir, order)
        assert [l.name for l in layers] == ["3-Hat", "1-Body"]
        assert layers[1].display_name == "Body"

    def test_scan_missing_ordered_folder(self, layers_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            scan_layers_folder(layers_dir, [LayerOptions(name="Nope")])

    def test_scan_missing_root(self, tmp_path):
        with pytest.raises(ConfigurationError):
            scan_layers_folder(tmp_path / "missing")


class TestValidateLayers:
    def test_valid(self, two_layers):
        validate_layers(two_layers)

    def test_no_layers(self):
        with pytest.raises(ConfigurationError, match="No layers"):
            validate_layers([])

    def test_empty_layer(self):
        with pytest.raises(ConfigurationError, match="no trait elements"):
            validate_layers([Layer(name="Empty", elements=[])])

    def test_zero_total_weight(self):
        layer = Layer(name="Z", elements=[make_element(0, "a#0.png", weight=0)])
        with pytest.raises(ConfigurationError, match="zero total weight"):
            validate_layers([layer])

    def test_opacity_out_of_range(self):
        layer = Layer(name="O", elements=[make_element(0, "a.png")], opacity=1.5)
        with pytest.raises(ConfigurationError, match="opacity"):
            validate_layers([layer])

    def test_reserved_filename_chars(self):
        layer = Layer(name="R", elements=[make_element(0, "a|b.png")])
        with pytest.raises(ConfigurationError, match="reserved"):
            validate_layers([layer])


class TestBackgroundLayer:
    @pytest.mark.parametrize("name", ["Background", "backgrounds", "0-Background Sky"])
    def test_detected(self, name):
        layer = Layer(name=name, elements=[make_element(0, "a.png")])
        assert has_background_layer([layer])

    def test_not_detected(self, two_layers):
        assert not has_background_layer(two_layers)
