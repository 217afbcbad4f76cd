from setuptools import setup, find_packages

package_name = 'hand_scan'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests']),
    python_requires='>=3.9',
    install_requires=[
        'setuptools',
        'numpy>=1.24',
        'opencv-python>=4.8',
        'mediapipe>=0.10.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    zip_safe=True,
    description='Webcam hand scan with MediaPipe hand detection',
    license='MIT',
    entry_points={
        'console_scripts': [
            'hand-scan = hand_scan.main:main',
        ],
    },
)
