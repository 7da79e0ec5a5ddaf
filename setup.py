import setuptools

DISTNAME = "relfm"
DESCRIPTION = (
    "Factorization machines with SGD, adaptive SGD, MCMC and ALS learning "
    "on sparse and relational data in Python."
)
LONG_DESCRIPTION = open("README.md").read()
MAINTAINER = "Kyohei Atarashi"
MAINTAINER_EMAIL = "atarashi@i.kyoto-u.ac.jp"
LICENSE = "MIT"
VERSION = "0.1.dev0"
INSTALL_REQUIRES = ["numpy", "scipy", "numba", "scikit-learn"]
EXTRAS_REQUIRE = {"test": ["pytest"]}


if __name__ == "__main__":
    setuptools.setup(
        name=DISTNAME,
        maintainer=MAINTAINER,
        include_package_data=True,
        maintainer_email=MAINTAINER_EMAIL,
        description=DESCRIPTION,
        license=LICENSE,
        version=VERSION,
        long_description=LONG_DESCRIPTION,
        long_description_content_type="text/markdown",
        packages=setuptools.find_packages(),
        install_requires=INSTALL_REQUIRES,
        extras_require=EXTRAS_REQUIRE,
        entry_points={"console_scripts": ["relfm = relfm.cli:main"]},
        python_requires=">=3.9",
        zip_safe=False,
        classifiers=[
            "Intended Audience :: Science/Research",
            "Intended Audience :: Developers",
            "License :: OSI Approved :: MIT License",
            "Topic :: Software Development",
            "Topic :: Scientific/Engineering",
            "Operating System :: POSIX",
            "Operating System :: Unix",
            "Programming Language :: Python :: 3",
            "Programming Language :: Python :: 3.9",
            "Programming Language :: Python :: 3.10",
            "Programming Language :: Python :: 3.11",
            "Programming Language :: Python :: 3.12",
        ],
    )
