#!/usr/bin/env python

"""Setup file and install script for the methylflow bisulfite sequencing pipeline"""

import os
import subprocess

import setuptools

VERSION = '0.1.0'

# add version number and git commit hash of the current revision to version.py
try:
    git_run = subprocess.run(['git', 'rev-parse', '--short', 'HEAD'], stdout=subprocess.PIPE,
                             stderr=subprocess.DEVNULL)
    git_run.check_returncode()
except (OSError, subprocess.SubprocessError):
    commit_hash = ''
else:
    commit_hash = git_run.stdout.strip().decode()

here = os.path.dirname(os.path.abspath(__file__))
with open(os.path.join(here, 'methylflow', 'pipeline', 'version.py'), 'w') as version_file:
    version_file.writelines([f'__version__ = "{VERSION}"\n',
                             f'__git_revision__ = "{commit_hash}"\n'])

# external programs (fastq-multx, fastqc, trim_galore, bismark, multiqc) are installed via Conda
setuptools.setup(name='methylflow',
                 version=VERSION,
                 description='Orchestration of bisulfite sequencing methylation pipelines',
                 packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
                 scripts=['scripts/methylflow_nextgen.py'],
                 python_requires='>=3.7',
                 install_requires=['logbook', 'PyYAML', 'toolz'],
                 extras_require={'test': ['pytest', 'mock', 'pytest-mock']})
