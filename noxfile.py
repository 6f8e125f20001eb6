import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13", "3.14"]


def _install(session: nox.Session) -> None:
    """Install the project with its test extra into the nox virtualenv."""
    session.run("poetry", "install", "--extras", "test", external=True)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run full test suite across Python versions."""
    _install(session)
    session.run("pytest")


@nox.session(python=PYTHON_VERSIONS)
def tests_domain(session: nox.Session) -> None:
    """Run domain-layer tests only (no HTTP, no SQL files)."""
    _install(session)
    session.run("pytest", "-m", "domain and not slow")


@nox.session(python=PYTHON_VERSIONS[-1])
def scenarios(session: nox.Session) -> None:
    """Run the checkout and order behaviour scenarios."""
    _install(session)
    session.run("pytest", "-m", "bdd")
