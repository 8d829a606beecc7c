from setuptools import setup, find_packages
from pathlib import Path

package_name = 'managed-kafka-operator'
description = (
    'A Kubernetes Operator reconciling ManagedKafka resources into Strimzi '
    'Kafka clusters and their security secrets.'
)
author = 'bf2'
license = 'Apache-2.0'
url = 'https://github.com/bf2fc6cc711aee1a0c2a/kas-fleetshard'
pypi_classifiers = [
    'Development Status :: 3 - Alpha',
    'License :: OSI Approved :: Apache Software License',
    'Programming Language :: Python :: 3.9'
]
keywords = ['kafka', 'strimzi', 'kubernetes']
readme = Path(__file__).parent / 'README.rst'

# Core dependencies
install_requires = [
    'kopf>=1.37',
    'kubernetes>=28.1.0',
    'structlog>=23.1.0',
    'prometheus-client>=0.17.0',
    'httpx>=0.25.0',
]

# Test dependencies
tests_require = [
    'pytest>=7.4.0',
    'pyyaml>=6.0',
]
tests_require += install_requires

# Optional dependencies (like for dev)
extras_require = {
    # For running the test suite
    'test': tests_require,
    # For development environments
    'dev': tests_require,
}

setup(
    name=package_name,
    version='0.1.0',
    description=description,
    long_description=readme.read_text(),
    long_description_content_type='text/x-rst',
    author=author,
    url=url,
    license=license,
    classifiers=pypi_classifiers,
    keywords=keywords,
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.9',
    install_requires=install_requires,
    extras_require=extras_require,
    include_package_data=True
)
