import os
import re

from setuptools import setup, find_packages


def get_version():
    with open(os.path.join('src', 'parloop', '__init__.py'), encoding='utf8') as init_file:
        return re.search(r"^__version__ = '([^']+)'", init_file.read(), re.M).group(1)


CLASSIFIERS = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "License :: OSI Approved :: MIT License",
    "Operating System :: POSIX",
    "Programming Language :: Python",
    "Programming Language :: Python :: 3",
]

INSTALL_REQUIRES = [
    "pyyaml",
]

EXTRAS_REQUIRE = {
    "tests": ["pytest", "pytest-cov"],
}

EXTRAS_REQUIRE["dev"] = EXTRAS_REQUIRE["tests"] + ["pre-commit"]


metadata = dict(
    name='parloop',
    license='MIT',
    description='Parallel loops over pluggable work managers, with ordered collation of results',
    long_description=open('README.rst', encoding='utf8').read(),
    version=get_version(),
    keywords='parallel foreach futures work manager',
    python_requires=">=3.8",
    zip_safe=False,
    classifiers=CLASSIFIERS,
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
    package_data={},
    packages=find_packages(where='src'),
    package_dir={"": "src"},
)


if __name__ == '__main__':
    setup(**metadata)
