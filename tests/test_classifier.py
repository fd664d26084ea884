import pytest

from nix_monitored.classifier import Verb, find_verb


def test_skips_value_taking_feature_flag():
    verb = find_verb(["nix", "--extra-experimental-features", "flakes", "build", "foo"])
    assert verb == Verb(3, "build")


def test_version_flag_is_a_verb():
    assert find_verb(["nix", "--version"]) == Verb(1, "--version")


def test_version_flag_after_other_flags():
    assert find_verb(["nix", "-v", "--version"]) == Verb(2, "--version")


@pytest.mark.parametrize(
    "argv",
    [
        ["nix"],
        ["nix", "-v", "--verbose", "-L"],
        ["nix", "--experimental-features", "nix-command flakes"],
        ["nix", "--option", "substitute", "false"],
    ],
)
def test_absent_verb(argv):
    assert find_verb(argv) is None


def test_plain_verb():
    assert find_verb(["nix", "run", "nixpkgs#hello"]) == Verb(1, "run")


def test_unknown_flags_do_not_consume_values():
    # `-L` takes no value, so "develop" is still the verb
    assert find_verb(["nix", "-L", "develop"]) == Verb(2, "develop")


def test_option_consumes_two_values():
    verb = find_verb(["nix", "--option", "cores", "4", "print-dev-env"])
    assert verb == Verb(4, "print-dev-env")


def test_value_of_feature_flag_is_never_the_verb():
    # "build" here is the value of the flag, not the subcommand
    assert find_verb(["nix", "--experimental-features", "build"]) is None


def test_argument_zero_is_ignored():
    assert find_verb(["build", "-v"]) is None


def test_verb_str():
    assert str(Verb(1, "shell")) == "shell"
