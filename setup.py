# Copyright (c) YugabyteDB, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not use this file except
# in compliance with the License.  You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software distributed under the License
# is distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express
# or implied.  See the License for the specific language governing permissions and limitations
# under the License.

from setuptools import setup

setup(name='goroutine-inspect',
      version='0.1',
      description='Interactive analysis of Go goroutine stack dumps',
      license='Apache License, Version 2.0',
      packages=[
          'goroutine_inspect'
      ],
      package_data={'goroutine_inspect': ['test_data/*.txt']},
      python_requires='>=3.8',
      install_requires=[
          'overrides'
      ],
      extras_require={
          'test': ['pytest >= 6.2']
      },
      entry_points={
          'console_scripts': [
              'goroutine-inspect=goroutine_inspect.inspect_tool:main'
          ]
      },
      zip_safe=False)
