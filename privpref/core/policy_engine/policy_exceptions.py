class PolicyError(Exception):
    """
    Base exception for all policy-related failures.
    """

    pass


class PolicyConfigurationError(PolicyError):
    """
    Raised when a policy taxonomy is misconfigured (e.g. duplicate node ids).
    """

    pass


class InvalidTaxonomy(PolicyConfigurationError):
    """
    Raised when taxonomy intervals violate the nested-set invariant.
    """

    pass


class InputMaterializationError(PolicyError):
    """
    Raised when an evaluation input cannot be produced from its external
    representation (unparseable, missing/mistyped fields, size ceilings).
    """

    pass
