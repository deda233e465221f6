from setuptools import setup


setup(
    name='metalpulse',
    packages = ['metalpulse', 'utils'],
    py_modules = ['run_metals'],
    version = '0.1.0',
    license='GPL-3.0',
    description = 'Precious-metal spot prices aggregated from several upstream providers, with edge-triggered email price alerts.',
    keywords = ['gold', 'silver', 'platinum', 'palladium', 'prices', 'alerts'],
    python_requires = '>=3.10',
    install_requires = [
        'requests',
    ],
    extras_require = {
        'test': ['pytest'],
    },
    entry_points = {
        'console_scripts': ['metalpulse=run_metals:main'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Operating System :: OS Independent',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
        'Programming Language :: Python :: 3',
    ],
)
