from setuptools import setup, find_packages

setup(
    name='tag_csv_toolkit',
    version='0.1.0',
    description='CSV import/export of hierarchical device tag definitions',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'lxml>=4.9.0',
    ],
    extras_require={
        'dev': ['pytest>=7.0'],
        'mcp': ['mcp[cli]>=1.2.0,<2'],
    },
    entry_points={
        'console_scripts': [
            'tag-csv-mcp-server=tag_csv_toolkit.mcp_server:main',
        ],
    },
)
