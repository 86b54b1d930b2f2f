import pytest

from catalog_sync.logic.taxonomy import (
    CategoryVocabulary,
    TaxonomyResolver,
    load_vocabulary,
    match_path,
    normalize_path,
    split_segments,
)

GID = "gid://shopify/TaxonomyCategory/"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("\\Jewelry\\Rings\\Fashion Rings", "aa-6-9"),
        ("\\Jewelry\\Earrings\\Studs", "aa-6-6"),
        ("Watches/Smart Watches", "aa-6-12"),
        ("Jewelry > Bracelets > Tennis", "aa-6-3"),
        ("Jewelry|Anklets", "aa-6-1"),
        ("\\Jewelry\\Pendants", "aa-6-5"),
        ("\\Jewelry\\Chains\\Curb Chains", "aa-6-8"),
        ("\\Gifts\\Misc;\\Jewelry\\Pendants", "aa-6-5"),
    ],
)
def test_resolves_table(resolver, path, expected):
    assert resolver.resolve(path) == GID + expected


def test_chain_and_necklace_paths_agree(resolver):
    necklace = resolver.resolve("\\Jewelry\\Necklaces\\Chain Necklaces\\Rope Chain Necklaces")
    chain = resolver.resolve("\\Jewelry\\Chains\\Rope Chains\\Rope Chain")
    assert necklace == chain == GID + "aa-6-8"


@pytest.mark.parametrize("path", [None, "", "   ", ";", "\\\\", "Miscellaneous"])
def test_unmatched_paths_fall_back_to_default(resolver, vocabulary, path):
    assert resolver.resolve(path) == vocabulary.default


def test_resolution_is_deterministic(resolver, vocabulary):
    paths = ["\\Jewelry\\Rings", "Watch Bands", "", "\\Jewelry\\Sets\\Bridal"]
    first = [resolver.resolve(p) for p in paths]
    second = [resolver.resolve(p) for p in reversed(paths)][::-1]
    assert first == second
    assert set(first) <= vocabulary.category_ids


def test_leaf_segment_is_tried_first():
    vocabulary = CategoryVocabulary.from_mapping({"rings": "R", "necklaces": "N"}, default="D")
    assert match_path("\\Necklaces\\Rings", vocabulary) == "R"
    assert match_path("\\Rings\\Necklaces", vocabulary) == "N"


def test_vocabulary_order_breaks_ties():
    vocabulary = CategoryVocabulary.from_mapping({"chain": "C", "necklace": "N"}, default="D")
    assert match_path("Chain Necklace Combo", vocabulary) == "C"
    assert match_path("chain necklace", vocabulary) == "C"


def test_from_mapping_normalizes_and_dedupes():
    vocabulary = CategoryVocabulary.from_mapping({" Rings ": "R", "rings": "X", "": "E"}, default="D")
    assert vocabulary.entries == (("rings", "R"),)
    assert len(vocabulary) == 1
    assert vocabulary.exact("rings") == "R"


def test_normalize_and_split():
    assert normalize_path("  \\Jewelry\\RINGS ") == "\\jewelry\\rings"
    assert split_segments("\\jewelry\\\\rings/ bands > x|y") == ["jewelry", "rings", "bands", "x", "y"]


def test_load_custom_vocabulary(tmp_path):
    table = tmp_path / "categories.yml"
    table.write_text(
        "default: other\n"
        "categories:\n"
        "  - id: bands\n"
        "    keywords: [band, bands]\n"
        "  - id: chains\n"
        "    keywords: [chain, band]\n"
    )
    vocabulary = load_vocabulary(table)
    assert vocabulary.default == "other"
    assert vocabulary.entries == (("band", "bands"), ("bands", "bands"), ("chain", "chains"))
    assert TaxonomyResolver(vocabulary).resolve("Watch Band") == "bands"


def test_bundled_vocabulary_has_jewelry_categories(vocabulary):
    assert vocabulary.default == GID + "aa-6-8"
    assert vocabulary.exact("rings") == GID + "aa-6-9"
    assert vocabulary.exact("rope chain") == GID + "aa-6-8"
