"""
Canonical JSON and digest tests for sealchain.

Canonical output must be byte-identical to ECMAScript JSON.stringify over
the key-sorted value, so independent implementations reproduce digests.
"""

from pathlib import Path

import pytest

# Add parent src to path for development
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sealchain import (
    CanonicalizationError,
    DigestEngine,
    UnsupportedAlgorithmError,
    canonical_json,
    canonicalize,
    digest_bytes,
    digest_file,
    digest_value,
)


# SHA-256("abc")
ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class TestCanonicalJson:
    """Test canonical JSON serialization."""

    def test_sorted_keys(self):
        """Object keys must be sorted by Unicode code point."""
        obj = {"z": 1, "a": 2, "m": 3}
        assert canonical_json(obj) == '{"a":2,"m":3,"z":1}'

    def test_no_whitespace(self):
        """No whitespace between tokens."""
        assert canonical_json({"key": [1, 2, 3]}) == '{"key":[1,2,3]}'

    def test_nested_sorting(self):
        """Nested objects must also have sorted keys."""
        obj = {"outer": {"z": 1, "a": 2}, "list": [{"b": 1, "a": 2}]}
        assert canonical_json(obj) == '{"list":[{"a":2,"b":1}],"outer":{"a":2,"z":1}}'

    def test_sequence_order_preserved(self):
        """Arrays keep their order; tuples serialize as arrays."""
        assert canonical_json([3, 1, 2]) == "[3,1,2]"
        assert canonical_json((3, 1, 2)) == "[3,1,2]"

    def test_uppercase_sorts_before_lowercase(self):
        """Code point order, not case-insensitive order."""
        assert canonical_json({"b": 1, "B": 2, "a": 3}) == '{"B":2,"a":3,"b":1}'

    def test_null_and_booleans(self):
        assert canonical_json({"key": None}) == '{"key":null}'
        assert canonical_json(True) == "true"
        assert canonical_json(False) == "false"

    def test_integer_values(self):
        """Integers are written exactly."""
        assert canonical_json(42) == "42"
        assert canonical_json(-17) == "-17"
        assert canonical_json(0) == "0"
        assert canonical_json(10**25) == "10000000000000000000000000"

    def test_float_values(self):
        """Floats use shortest round-trip digits in ECMAScript layout."""
        assert canonical_json(3.14) == "3.14"
        assert canonical_json(1.0) == "1"
        assert canonical_json(-0.0) == "0"
        assert canonical_json(0.0001) == "0.0001"
        assert canonical_json(0.000001) == "0.000001"
        assert canonical_json(1e20) == "100000000000000000000"

    def test_float_exponent_form(self):
        """Exponents have an explicit sign and no leading zeros."""
        assert canonical_json(1e-7) == "1e-7"
        assert canonical_json(1e21) == "1e+21"
        assert canonical_json(1.5e300) == "1.5e+300"
        assert canonical_json(-2.5e-8) == "-2.5e-8"

    def test_non_finite_numbers_become_null(self):
        """NaN and infinities normalize to null instead of failing."""
        assert canonical_json(float("nan")) == "null"
        assert canonical_json(float("inf")) == "null"
        assert canonical_json({"x": float("-inf")}) == '{"x":null}'

    def test_unrepresentable_values_become_null(self):
        """Values JSON cannot represent normalize to null."""
        assert canonical_json({"f": len, "s": {1, 2}}) == '{"f":null,"s":null}'

    def test_string_escaping(self):
        """Strings escape control characters properly."""
        assert canonical_json("hello\nworld") == '"hello\\nworld"'
        assert canonical_json('say "hi"\\') == '"say \\"hi\\"\\\\"'
        assert canonical_json("\x01") == '"\\u0001"'

    def test_non_ascii_is_literal(self):
        """Non-ASCII characters are emitted as UTF-8, not escaped."""
        assert canonical_json("café") == '"café"'
        assert canonicalize("café") == '"café"'.encode("utf-8")

    def test_lone_surrogate_escaped(self):
        """Lone surrogates are escaped so the output is valid UTF-8."""
        assert canonical_json("a\ud800b") == '"a\\ud800b"'
        canonicalize("a\ud800b").decode("utf-8")

    def test_key_order_independent(self):
        """Insertion order of keys never changes the bytes."""
        first = {"a": {"x": 1, "y": [1, {"q": 1, "p": 2}]}, "b": True}
        second = {"b": True, "a": {"y": [1, {"p": 2, "q": 1}], "x": 1}}
        assert canonicalize(first) == canonicalize(second)

    def test_deterministic(self):
        value = {"k": [1.5, "s", None, {"z": 0}]}
        assert canonicalize(value) == canonicalize(value)

    def test_shared_reference_is_not_a_cycle(self):
        """The same object reachable twice is fine."""
        shared = {"a": 1}
        assert canonical_json({"p": shared, "q": shared}) == '{"p":{"a":1},"q":{"a":1}}'

    def test_cycle_rejected(self):
        """Cyclic structures raise instead of hashing a placeholder."""
        loop: list = []
        loop.append(loop)
        with pytest.raises(CanonicalizationError):
            canonical_json(loop)

        node: dict = {"name": "n"}
        node["self"] = node
        with pytest.raises(CanonicalizationError):
            canonical_json({"root": node})

    def test_non_string_key_rejected(self):
        with pytest.raises(CanonicalizationError):
            canonical_json({1: "one"})


class TestDigest:
    """Test the digest engine."""

    def test_known_vector(self):
        assert digest_bytes(b"abc") == ABC_SHA256

    def test_digest_value_is_digest_of_canonical_bytes(self):
        value = {"b": 1, "a": [True, None]}
        assert digest_value(value) == digest_bytes(b'{"a":[true,null],"b":1}')

    def test_format(self):
        """64 lowercase hex characters."""
        digest = digest_value({"message": "test"})
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_key_order_independent(self):
        assert digest_value({"z": 1, "a": 2}) == digest_value({"a": 2, "z": 1})

    def test_digest_file_raw_bytes(self, tmp_path):
        """File digests cover exact on-disk bytes, not canonical JSON."""
        path = tmp_path / "abc.txt"
        path.write_bytes(b"abc")
        assert digest_file(path) == ABC_SHA256

        pretty = tmp_path / "pretty.json"
        pretty.write_text('{ "b": 1, "a": 2 }', encoding="utf-8")
        assert digest_file(pretty) != digest_value({"a": 2, "b": 1})

    def test_digest_file_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            digest_file(tmp_path / "nope.json")

    def test_alternative_algorithm(self):
        engine = DigestEngine("sha3_256")
        digest = engine.digest_bytes(b"abc")
        assert len(digest) == 64
        assert digest != ABC_SHA256

    def test_short_digest_rejected(self):
        """Only 256-bit algorithms are accepted."""
        with pytest.raises(UnsupportedAlgorithmError):
            DigestEngine("md5")

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(UnsupportedAlgorithmError):
            DigestEngine("not-a-hash")
