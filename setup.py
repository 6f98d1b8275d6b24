from setuptools import setup, find_packages

package_name = 'gesture_teleop'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests']),
    python_requires='>=3.9',
    install_requires=[
        'setuptools',
        'numpy>=1.24',
        'scipy>=1.10',
        'opencv-python>=4.8',
        'mediapipe>=0.10.9',
        'websockets>=13.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    zip_safe=True,
    description='Gesture-driven robot teleoperation client for RGB-D cameras',
    license='MIT',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'gesture-teleop = gesture_teleop.main:main',
        ],
    },
)
