import os.path
import re

from paver.tasks import task
from paver.easy import sh


def tell(x):
    print()
    print(("-"*10)+ str(x) + ("-"*10))
    print()

@task
def build(quiet=True):
    """ Builds the ecashlib distribution, ready to be uploaded to pypi. """
    tell("Build dist")
    sh('python setup.py sdist', capture=quiet)

@task
def upload(quiet=False):
    """ Uploads the latest distribution to pypi. """

    lib = open(os.path.join("ecashlib", "__init__.py")).read()
    v = re.findall("VERSION.*=.*['\"](.*)['\"]", lib)[0]

    tell("upload dist %s" % v)
    sh('git tag -a v%s -m "Distribution versio v%s"' % (v, v))
    sh('python setup.py sdist upload', capture=quiet)
    tell('Remember to upload tags using "git push --tags"')

@task
def test(quiet=False):
    """ Run the library and example tests, with coverage. """
    tell("Run the tests")
    sh('py.test -v --cov=ecashlib --cov-report=term-missing ecashlib/*.py examples/*.py',
       capture=quiet)

@task
def lint(quiet=False):
    """ Run the python linter on ecashlib. """
    tell("Run pylint on the library")
    sh('pylint ecashlib', capture=quiet)

@task
def wc(quiet=False):
    """ Count the ecashlib library and example code lines. """
    tell("Counting code lines")

    print("\nLibrary code:")
    sh('wc -l ecashlib/*.py', capture=quiet)

    print("\nExample code:")
    sh('wc -l examples/*.py', capture=quiet)

    print("\nAdministration code:")
    sh('wc -l pavement.py setup.py', capture=quiet)
